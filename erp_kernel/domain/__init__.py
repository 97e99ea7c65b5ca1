"""Pure domain primitives: money and rates, clock, posting line specs."""

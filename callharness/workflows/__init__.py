"""Load-test flows invoked by an external load driver."""

"""Floor field cellular automaton for pedestrian evacuation."""

__version__ = "0.1.0"

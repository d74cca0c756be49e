"""Core engine: content model, history, wire codec and the turn loop."""

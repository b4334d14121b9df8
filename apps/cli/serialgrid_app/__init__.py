"""Command line tools for serialosc grids and arcs."""

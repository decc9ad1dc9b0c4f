"""Up/down price-prediction game engine."""

"""Members (household subset) and learned memo aliases."""

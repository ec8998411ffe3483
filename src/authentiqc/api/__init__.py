"""HTTP surface and activity panel."""

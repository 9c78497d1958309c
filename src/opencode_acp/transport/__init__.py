"""Transport layer: the ACP agent surface over stdio."""

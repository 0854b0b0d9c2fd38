"""HTTP API of Book Imbiber."""

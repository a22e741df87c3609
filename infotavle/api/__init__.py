"""HTTP surface of the ad server."""

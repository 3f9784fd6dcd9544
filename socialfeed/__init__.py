"""Data-access core of a social feed: stores, cache-aside layer and services."""

"""Peer ratings between students and couriers."""

from campus_courier.ratings.aggregator import RatingAggregator

__all__ = ["RatingAggregator"]

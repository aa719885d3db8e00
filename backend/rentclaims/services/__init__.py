"""Rental Claims Core - Services"""

"""Delivery service test data contracts"""

"""Bookings domain - creation, payment authorization and the service lifecycle"""

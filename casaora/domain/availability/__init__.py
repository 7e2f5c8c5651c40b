"""Availability domain - working hours, blocked dates and open slots"""

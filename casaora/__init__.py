"""Casaora marketplace backend"""

"""Payments domain - Stripe wrapper and webhook handling"""

"""Payouts domain - commission math, balances, instant and batch payouts"""

"""Fraud detection heuristics and account risk scoring"""

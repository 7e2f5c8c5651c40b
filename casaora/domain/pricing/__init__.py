"""Pricing domain - country pricing, subscription discounts and cancellation refunds"""

"""
UserOperation pipeline for EntryPoint v0.7.

build -> hash -> sign -> submit (bundler or direct) -> confirm
"""

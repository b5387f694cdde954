"""
Command implementations for the gasless CLI.

- sponsor: Sponsored ERC-20 transfer / approve through a smart account
- inspect: UserOperation hash comparison and revert decoding
"""

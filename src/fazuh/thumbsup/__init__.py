"""Thumbsup: keep AUR votes in sync with installed packages.

This package contains the AUR web session client, the vote reconciliation
engine, and the command line that feeds it the installed package list from
pacman.
"""

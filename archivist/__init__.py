"""
Archivist: Wayback Machine Batch Archiver

A utility for getting a list of links durably preserved in the Internet
Archive's Wayback Machine: each URL is checked for an existing snapshot and,
when none is found, a fresh capture is requested through the save-now page
while respecting the service's per-URL and daily capture limits.
"""

__version__ = "1.0.0"
__author__ = "Archivist Project"
__description__ = "Wayback Machine Batch Archiver"

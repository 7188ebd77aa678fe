"""Command line tool for kahoy."""

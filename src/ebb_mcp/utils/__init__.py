"""Shared helpers: parameter validation, bit decoding and ADC conversions."""

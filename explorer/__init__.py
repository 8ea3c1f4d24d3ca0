"""Walkthrough orchestration for the CoralHydro2k explorer."""

"""Configuration for Multi Chat."""

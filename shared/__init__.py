"""Configuration, constants and cross-cutting helpers."""

"""Innkeeper: booking lifecycle and unit availability reconciliation."""

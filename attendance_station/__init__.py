"""Classroom attendance station: live face matching and attendance reconciliation."""

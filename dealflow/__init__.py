"""Opportunity matching and scoring for an incubator deal pipeline."""

"""CJMS attribution pipeline."""

"""Headless processing pipelines for lesson documentation."""

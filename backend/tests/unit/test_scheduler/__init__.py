"""Retention scheduler tests"""

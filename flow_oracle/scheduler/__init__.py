"""Periodic scheduling of update cycles"""

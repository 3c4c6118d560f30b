"""FieldOps Pro - field service management API"""

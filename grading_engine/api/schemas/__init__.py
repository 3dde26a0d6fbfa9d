"""
Request / response schemas
"""

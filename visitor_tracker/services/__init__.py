"""
Services module for visitor tracking logic.

Geolocation, visit recording, queries and the admin broadcaster live here,
kept apart from the API endpoints and the database models.
"""

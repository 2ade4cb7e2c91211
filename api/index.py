"""
Vercel Serverless Entry Point

This file serves as the bridge between Vercel's serverless runtime and the Flask application.

Architecture:
- Vercel calls this file for every request to /api/* and /auth/*
- The Flask app handles routing via blueprints in harvests/api/
- Scheduled jobs (batch generation, cutoff reminders) arrive here too,
  authenticated with CRON_SECRET
"""

from harvests import create_app
from harvests.config import Config

# Fail fast on missing secrets before the first request is served
Config.validate()

app = create_app()

# Supabase table: teams
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- name: text (not null) - also the Kubernetes namespace name inside the environment's cluster
- environment_id: uuid (foreign key to environments.id, not null, on delete cascade)
- status: text (not null, default: 'creating') - values: creating, ready, failed
- error_message: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (environment_id, name)
"""

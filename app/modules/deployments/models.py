# Supabase table: deployments
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key, default: gen_random_uuid())
- user_id: uuid (foreign key to auth.users.id, not null) - every query filters on it
- project_name: text (not null) - lowercase letters, digits and hyphens; not unique here
- description: text (nullable)
- source_repo_url: text (nullable) - GitHub html URL, set once the repository exists
- source_repo_name: text (nullable)
- hosting_project_id: text (nullable) - Vercel project id
- hosting_project_url: text (nullable)
- hosting_deployment_url: text (nullable) - predicted, then confirmed by the poller
- status: text (not null, default: 'deploying') - values: deploying, completed, failed, timeout
- error: text (nullable) - user-safe message, set with failed/timeout
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())

Index: (user_id, status, created_at) serves both the owner listing and the stale reaper.
"""

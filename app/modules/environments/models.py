# Supabase table: environments
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key, default: gen_random_uuid())
- name: text (not null, unique)
- status: text (not null, default: 'creating') - values: creating, provisioning, ready, failed, cancelled, deleting
- description: text (nullable)
- kubeconfig_ref: text (nullable) - "<backend>:<id>" handle into the kubeconfig secret store, set only once ready
- error_message: text (nullable) - last provisioning error when status is failed
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

The cluster for an environment is named deterministically from its id
(see app.modules.clusters.k3d.cluster_name_for).
"""

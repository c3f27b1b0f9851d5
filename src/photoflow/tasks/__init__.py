"""
Task subsystem.

Components:
- task_models.py: data structures (Step, TaskDefinition, Job, JobItem, TaskHandle)
- task_definitions.py / task_definitions.json: task type -> ordered steps registry
- job_store.py: SQLite-backed job queue + query/update helpers
- task_starter.py: task request -> first step's job(s)
- task_advancer.py: completion/failure hook that enqueues the next step
- events.py: job status notifications
- handlers.py / worker_loop.py: polling worker that runs job handlers
- maintenance.py: periodic global maintenance tasks
- task_api.py: small high-level helpers used by the rest of the app
"""

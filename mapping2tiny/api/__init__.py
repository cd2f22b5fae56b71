"""HTTP conversion service.

- orchestrator.py: job registry, background workers, job execution
- server.py: Flask routes (/jobs, /formats)
"""

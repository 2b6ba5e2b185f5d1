"""
clinicflow: appointment-triggered workflow automation for aesthetics clinics.

Main pieces:
- automation: classifier, duplicate guard, enrollment engine, step executor, runner
- collaborators: messaging, client records and custom actions used by the executor
- routers: FastAPI HTTP surface
"""

__version__ = "0.1.0"

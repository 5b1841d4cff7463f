"""
Jobs package - background scheduling
"""
from .scheduler import JobScheduler

__all__ = ['JobScheduler']

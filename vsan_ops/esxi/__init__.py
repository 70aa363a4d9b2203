"""
ESXi Patching Module
Handles rolling ESXi patching via SSH and vCenter orchestration
"""
from .ssh_client import EsxiPatchService, EsxiSshClient
from .orchestrator import PatchOrchestrator

__all__ = ['EsxiSshClient', 'EsxiPatchService', 'PatchOrchestrator']

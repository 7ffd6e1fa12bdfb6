"""Launch and deployment adapters for the two virtualization backends."""

from .crosvm import CrosvmDeployAdapter, crosvm_command
from .qemu import MMIO_TOPOLOGY, PCI_TOPOLOGY, QemuLaunchAdapter, topology_args, topology_for

__all__ = [
    "CrosvmDeployAdapter",
    "MMIO_TOPOLOGY",
    "PCI_TOPOLOGY",
    "QemuLaunchAdapter",
    "crosvm_command",
    "topology_args",
    "topology_for",
]

"""spunnel - SSH port forwarding from SLURM execution nodes to the submit host."""

__version__ = "0.2.0"

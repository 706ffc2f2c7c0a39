"""EtherCAT master building blocks: protocol types, wire records, EoE fields, timing, adapters and a raw frame driver."""

__version__ = "0.1.0"

__all__ = ["adapters", "eoe", "nicdrv", "osal", "structures", "types"]
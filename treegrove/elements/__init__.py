from treegrove.elements.partition import Partition

__all__ = ["Partition"]

from burn_register.models import SlotConfig


def eligible(sequence_number: int, slots: SlotConfig) -> bool:
    """True when this instance owns the block.

    Run N instances with partition_index 0..N-1 and the same partition_count
    to cover every block exactly once without any coordination.
    """
    return sequence_number % slots.partition_count == slots.partition_index

"""Online order synchronization core for the PDV back office."""

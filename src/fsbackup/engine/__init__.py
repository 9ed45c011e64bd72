"""Operation planning and execution: full, sync, incremental and recover."""

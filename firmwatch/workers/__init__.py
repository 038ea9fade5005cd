"""Background workers for scheduled deadline scans."""

"""Readers of system statistics: CPU, disks and docker cgroups, with shared helpers."""
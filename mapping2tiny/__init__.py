"""Mapping2Tiny: converts JVM name mappings between formats.

- visitor/: event protocol shared by readers, the tree and writers
- tree/: multi-namespace mapping tree (builder + frozen accessor)
- descriptor/: structured descriptors and the class-name remapper
- namespaces/: namespace projection, fallback chains and tree merging
- formats/: readers/writers and the format registry
- conversion/: conversion jobs (streaming or tree based, atomic output)
"""

__version__ = "0.2.0"

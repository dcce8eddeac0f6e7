#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core functionality for environmental layer extraction.

This module contains the grid data model, raster and table I/O,
configuration management, error types and logging setup.
"""

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility modules for environmental layer extraction.

This package contains general-purpose helpers for timing, parallel
execution and numeric rounding.
"""

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Layer acquisition for environmental layer extraction.

This package contains the layer providers, the local raster cache and the
layer catalog reader.
"""

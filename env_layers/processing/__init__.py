#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Processing stages for environmental layers.

This package contains the spatial clipper, the correlation analyzer, the
raster stack and the point sampler.
"""

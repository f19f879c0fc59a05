"""Core computational modules for ATAC-Bridge.

This package contains the main analysis engines:
- fragments: Per-barcode fragment counting and cell selection
- quantification: Peak counting from fragments and QC filtering
- reduction: Top features, LSI/spectral embedding and UMAP
- integration: Dataset merging and embedding integration
- transfer: Reference mapping, label and expression transfer
"""

# Tabular Disease Contributor Training Module
"""
Local training module for the disease prediction federation.

A contributor (hospital/doctor) trains the disease model on its own CSV and
uploads the resulting artifacts to the shared storage for aggregation.

Diseases: diabetes, cancer, heart_disease, kidney_disease, parkinson
Target: binary classification (one label column per disease)
"""

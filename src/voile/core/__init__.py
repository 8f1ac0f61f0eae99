"""Exit note, commitment, encryption and proof primitives"""

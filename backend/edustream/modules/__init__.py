"""Application modules.

This package contains the feature modules of the transcoding backend:
- content: Content records and their change events
- transcoding: Job submission, completion handling and artifact cleanup
"""

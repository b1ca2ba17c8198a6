"""
Services layer - Business logic goes here.

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Every mutation asks PolicyEvaluator first; role comparisons live in RoleHierarchy only
- Services talk to the RecordStore, never to Firestore directly
"""

"""Approval decision logic -- pure functions over deal attributes.

Criteria evaluation, approver-level resolution, department mapping,
pipeline aggregation, and the deal status state machine. Nothing in this
package touches the database or the network.
"""

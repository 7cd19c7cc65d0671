# Services package init
"""
BookSwap Backend - Services Layer
===================================

What:  Business logic sitting between routes (HTTP) and the database.
How:   Services take a RequestContext (caller + session) or a bare session,
       apply the business rules and return response schemas.

Service Inventory:
    - swap_state: Pure transition planner for swap requests
    - SwapService: Creates swaps, applies transitions with compare-and-set
    - NotificationService: Event notifications, feed, daily reminder sweep
    - BookService: Book listing and owner-only CRUD
    - ChatService: Direct messages and conversation summaries
    - ProfileService: Profiles, rating aggregates, avatar uploads
    - StorageService: Avatar validation, storage and URL resolution
    - DashboardService: Concurrent, deadline-bounded dashboard assembly
"""

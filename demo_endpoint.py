"""
Local development server for the NeuroCal backend.

Starts uvicorn with reload and prints the main endpoints.
"""

import uvicorn

if __name__ == "__main__":
    print("=" * 60)
    print("Starting NeuroCal Backend")
    print("=" * 60)
    print()
    print("📌 API Endpoints:")
    print("   - Health Check:  GET  http://localhost:8000/health")
    print("   - Register:      POST http://localhost:8000/api/auth/register")
    print("   - Events:        GET  http://localhost:8000/api/calendar/events")
    print("   - Parse text:    POST http://localhost:8000/api/ai/parse")
    print("   - Plans:         GET  http://localhost:8000/api/billing/plans")
    print("   - API Docs:           http://localhost:8000/docs")
    print()
    print("🔐 Authentication:")
    print("   Endpoints outside /health, /api/auth and the Stripe webhook require:")
    print("   Authorization: Bearer <token from /api/auth/login>")
    print()
    print("📝 Test with curl:")
    print('   curl -X POST "http://localhost:8000/api/ai/parse" \\')
    print('     -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \\')
    print('     -d \'{"text": "Lunch with Sam tomorrow at noon"}\'')
    print()
    print("=" * 60)
    print("Starting server on http://localhost:8000")
    print("Press Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(
        "neurocal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

from django.http import HttpResponse, JsonResponse
from django.utils import timezone

HOME_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>Solpay · Subscriptions paid in SOL</title>
<style>
    :root {
        font-family: "Inter", -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
        color: #0f172a;
        background: radial-gradient(circle at top, #f5f3ff, #ffffff 45%);
    }
    body {
        margin: 0;
        min-height: 100vh;
        display: flex;
        align-items: center;
        justify-content: center;
    }
    .hero {
        width: min(960px, 92vw);
        padding: 3rem 3.5rem;
        border-radius: 32px;
        background: rgba(255, 255, 255, 0.9);
        box-shadow: 0 20px 45px rgba(15, 23, 42, 0.08);
        border: 1px solid rgba(139, 92, 246, 0.15);
    }
    h1 {
        font-size: clamp(2.5rem, 4vw, 3.5rem);
        margin: 0.25rem 0 1rem;
    }
    .cta-row {
        margin-top: 2rem;
        display: flex;
        gap: 1rem;
        flex-wrap: wrap;
    }
    .cta {
        flex: 1 1 240px;
        padding: 1.25rem;
        border-radius: 18px;
        border: 1px solid rgba(15, 23, 42, 0.08);
        background: #f8fafc;
    }
    code {
        font-size: 0.95rem;
        background: rgba(139, 92, 246, 0.1);
        padding: 0.4rem 0.6rem;
        border-radius: 8px;
        display: inline-block;
    }
</style>
</head>
<body>
    <main class="hero">
        <h1>Solpay</h1>
        <p>
            Premium access paid in SOL. Request a payment reference, send the transfer
            from your wallet, and submit the signature to unlock your subscription.
        </p>
        <div class="cta-row">
            <div class="cta">
                <h2>Create</h2>
                <p>Lock in the current price and receive a one-time reference.</p>
                <code>POST /api/payment/create</code>
            </div>
            <div class="cta">
                <h2>Verify</h2>
                <p>Submit the finalized transaction signature for the reference.</p>
                <code>POST /api/payment/verify</code>
            </div>
        </div>
    </main>
</body>
</html>"""


def home(request):
    return HttpResponse(HOME_PAGE_HTML, content_type="text/html; charset=utf-8")


def health(request):
    return JsonResponse({"status": "ok", "timestamp": timezone.now().isoformat()})

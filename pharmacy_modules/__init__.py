"""
Pharmacy Modules -- thin call sites over the kernel.

Each module is a service facade that picks a flow profile and delegates to
``pharmacy_kernel``:

    sales        point-of-sale, including share-code prescriptions
    orders       customer orders
    procurement  purchase orders and goods receiving
    expense      expense recording, approval and budget allocation
"""
